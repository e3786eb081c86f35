from django import forms

from billing import config


class WalletTopupForm(forms.Form):
    amount = forms.IntegerField(min_value=config.WALLET_TOPUP_MIN_AMOUNT, max_value=config.WALLET_TOPUP_MAX_AMOUNT)
    attempt_id = forms.CharField(max_length=64, required=False)
