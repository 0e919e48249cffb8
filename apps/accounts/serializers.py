from rest_framework import serializers
from .models import User


class UserProfileSerializer(serializers.ModelSerializer):
    branchId = serializers.IntegerField(source="branch_id", read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'full_name', 'email', 'role', 'branchId']
