from django import forms
from django.contrib.auth.forms import UserChangeForm, UserCreationForm

from .models import CustomUser


class CustomUserCreationForm(UserCreationForm):
    email = forms.EmailField(required=True)

    class Meta:
        model = CustomUser
        fields = ("email", "role")


class CustomUserChangeForm(UserChangeForm):
    class Meta:
        model = CustomUser
        fields = ("email", "role", "status")


class UserActionForm(forms.Form):
    ACTION_CHOICES = [
        ("suspend", "Suspend"),
        ("activate", "Activate"),
        ("delete", "Delete"),
    ]

    action = forms.ChoiceField(choices=ACTION_CHOICES)
