from django import forms

from bookings import config


class BookingCreateForm(forms.Form):
    provider_id = forms.IntegerField(min_value=1)
    start_time = forms.DateTimeField()
    duration_minutes = forms.IntegerField(min_value=config.MIN_DURATION_MINUTES, max_value=config.MAX_DURATION_MINUTES)


class BookingCancelForm(forms.Form):
    reason = forms.CharField(max_length=1000, required=False)


class MessageForm(forms.Form):
    body = forms.CharField(max_length=config.MESSAGE_MAX_LENGTH)
