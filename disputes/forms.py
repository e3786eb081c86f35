from django import forms

from disputes.models import Dispute


class DisputeCreateForm(forms.Form):
    booking_id = forms.IntegerField(min_value=1)
    reason = forms.CharField(max_length=255)
    description = forms.CharField(required=False)
    priority = forms.ChoiceField(choices=Dispute.PRIORITY_CHOICES, required=False)

    def clean_priority(self):
        return self.cleaned_data.get("priority") or "medium"


class DisputeCommunicateForm(forms.Form):
    message = forms.CharField()
    is_internal = forms.BooleanField(required=False)
    to_user_id = forms.IntegerField(min_value=1, required=False)


class DisputeResolveForm(forms.Form):
    dispute_id = forms.IntegerField(min_value=1)
    resolution = forms.ChoiceField(choices=Dispute.RESOLUTION_CHOICES)
    amount = forms.IntegerField(required=False)
    notes = forms.CharField(required=False)

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("resolution") == Dispute.PARTIAL_REFUND and cleaned.get("amount") is None:
            self.add_error("amount", "Amount is required for a partial refund.")
        return cleaned
