import bleach
from rest_framework import serializers

from records.models import User


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class PatientListQuerySerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True, max_length=128)
    dir = serializers.ChoiceField(choices=['asc', 'desc'], required=False, default='asc')
    page = serializers.IntegerField(required=False, min_value=1, default=1)


class PatientFieldsMixin(serializers.Serializer):
    firstName = serializers.CharField(max_length=150, required=False, allow_blank=True)
    lastName = serializers.CharField(max_length=150, required=False, allow_blank=True)
    dob = serializers.DateField(required=False, allow_null=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True, allow_null=True)
    address = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)

    def validate_firstName(self, v):
        return _clean(v)

    def validate_lastName(self, v):
        return _clean(v)

    def validate_phone(self, v):
        return _clean(v)

    def validate_address(self, v):
        return _clean(v)


class PatientCreateSerializer(PatientFieldsMixin):
    email = serializers.EmailField(max_length=254)
    password = serializers.CharField(write_only=True, trim_whitespace=False)

    def validate_email(self, v):
        v = v.strip().lower()
        if User.objects.filter(username__iexact=v).exists():
            raise serializers.ValidationError('A patient with this e-mail already exists.')
        return v


class PatientUpdateSerializer(PatientFieldsMixin):
    email = serializers.EmailField(max_length=254, required=False)

    def validate_email(self, v):
        v = v.strip().lower()
        user = self.context.get('user')
        qs = User.objects.filter(username__iexact=v)
        if user is not None:
            qs = qs.exclude(pk=user.pk)
        if qs.exists():
            raise serializers.ValidationError('A patient with this e-mail already exists.')
        return v


class ProfileUpdateSerializer(PatientFieldsMixin):
    """Fields a patient may change on their own record."""
    dob = None
