"""Patient records application for the EMR portal.

This package contains the models, the recurrence expansion core,
serializers, services and views behind the patient portal and the staff
console.
"""
