from rest_framework import generics
from rest_framework.permissions import IsAdminUser
from .models import AuditLog
from .params import int_query_param
from .serializers import AuditLogSerializer

class AuditLogListView(generics.ListAPIView):
    # Select related avoids N+1 queries when fetching users
    queryset = AuditLog.objects.select_related('actor').all().order_by('-timestamp')
    serializer_class = AuditLogSerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        queryset = super().get_queryset()
        action = self.request.query_params.get('action')
        if action:
            queryset = queryset.filter(action=action)
        actor = int_query_param(self.request, 'actor')
        if actor is not None:
            queryset = queryset.filter(actor_id=actor)
        return queryset
