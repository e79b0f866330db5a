from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # --- Authentication & profile ---
    path('api/auth/', include('users.urls')),

    # --- Student exam taking ---
    path('api/student/', include('assessments.urls')),

    # --- Admin: audit trail, grade statistics ---
    path('api/admin/', include('cores.urls')),
    path('api/admin/', include('assessments.admin_urls')),

    # --- Admin: exams, question bank, categories ---
    path('api/', include('exams.urls')),
]
