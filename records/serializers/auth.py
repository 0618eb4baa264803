from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    """Accepts ``username``, ``account`` or ``email`` plus ``password``/``pwd``."""
    username = serializers.CharField(required=False, allow_blank=True)
    account = serializers.CharField(required=False, allow_blank=True)
    email = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    pwd = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)

    def validate(self, attrs):
        username = (attrs.get('username') or attrs.get('account') or attrs.get('email') or '').strip()
        password = attrs.get('password') or attrs.get('pwd') or ''
        if not username:
            raise serializers.ValidationError({'username': 'Username is required.'})
        if not password:
            raise serializers.ValidationError({'password': 'Password is required.'})
        return {'username': username, 'password': password}
