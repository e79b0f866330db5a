import logging

from rest_framework import generics, permissions, status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework_simplejwt.views import TokenObtainPairView

from cores.models import AuditLog

from .serializers import (
    RegisterSerializer,
    CustomTokenObtainPairSerializer,
    ChangePasswordSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)


class RegisterView(generics.CreateAPIView):
    serializer_class = RegisterSerializer
    permission_classes = [permissions.AllowAny]

    def perform_create(self, serializer):
        user = serializer.save()
        AuditLog.objects.create(
            actor=user,
            action=AuditLog.Action.REGISTER,
            target_model='User',
            target_object_id=str(user.id),
            details=f"Registered {user.email} (role: {user.role})",
        )
        logger.info("Registered user %s with role %s", user.id, user.role)


class CustomLoginView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class UserProfileView(generics.RetrieveUpdateAPIView):
    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user


class ChangePasswordView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)

        user = request.user
        user.set_password(serializer.validated_data['new_password'])
        user.save(update_fields=['password'])

        AuditLog.objects.create(
            actor=user,
            action=AuditLog.Action.PASSWORD_CHANGE,
            target_model='User',
            target_object_id=str(user.id),
            details="Password changed",
        )
        return Response({"status": "Password updated"}, status=status.HTTP_200_OK)
