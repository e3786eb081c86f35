from django import forms
from django.core.validators import RegexValidator

from payouts import config
from payouts.models import BankAccount

ifsc_validator = RegexValidator(r"^[A-Z]{4}0[A-Z0-9]{6}$", "Invalid IFSC code format")


class BankAccountForm(forms.Form):
    account_holder_name = forms.CharField(min_length=2, max_length=100)
    account_number = forms.RegexField(regex=r"^\d{9,18}$", error_messages={"invalid": "Account number must be 9 to 18 digits."})
    ifsc_code = forms.CharField(max_length=11, validators=[ifsc_validator])
    bank_name = forms.CharField(min_length=2, max_length=100)
    branch_name = forms.CharField(min_length=2, max_length=100, required=False)
    account_type = forms.ChoiceField(choices=BankAccount.ACCOUNT_TYPE_CHOICES, required=False)

    def clean_ifsc_code(self):
        return self.cleaned_data["ifsc_code"].upper()


class PennyTestForm(forms.Form):
    penny_amount = forms.DecimalField(min_value=1, max_value=10, decimal_places=2)


class PayoutRequestForm(forms.Form):
    amount = forms.IntegerField(
        min_value=config.PAYOUT_MIN_AMOUNT,
        max_value=config.PAYOUT_MAX_AMOUNT,
        error_messages={
            "min_value": f"Minimum payout amount is ₹{config.PAYOUT_MIN_AMOUNT}",
            "max_value": f"Maximum payout amount is ₹{config.PAYOUT_MAX_AMOUNT}",
        },
    )


class PayoutDecisionForm(forms.Form):
    action = forms.ChoiceField(choices=[("approve", "Approve"), ("reject", "Reject")])
    notes = forms.CharField(max_length=500, required=False)
    rejection_reason = forms.CharField(max_length=500, required=False)
    transaction_fee = forms.IntegerField(min_value=0, max_value=config.PAYOUT_MAX_TRANSACTION_FEE, required=False)

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("action") == "reject" and not cleaned.get("rejection_reason"):
            self.add_error("rejection_reason", "Rejection reason is required")
        return cleaned


class BankAccountDeleteRequestForm(forms.Form):
    reason = forms.CharField(min_length=10, max_length=500, required=False)


class DeleteRequestResolveForm(forms.Form):
    action = forms.ChoiceField(choices=[("approve", "Approve"), ("reject", "Reject")])
    notes = forms.CharField(max_length=500, required=False)
