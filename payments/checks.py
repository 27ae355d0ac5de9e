from django.conf import settings
from django.core.checks import Warning, register

REQUIRED_SETTINGS = (
    ("RAZORPAY_KEY_ID", "payments.W001"),
    ("RAZORPAY_KEY_SECRET", "payments.W002"),
    ("RAZORPAY_WEBHOOK_SECRET", "payments.W003"),
)


@register()
def razorpay_credentials_check(app_configs, **kwargs):
    """Report missing Razorpay credentials by name; values are never echoed."""
    return [
        Warning(
            f"{name} is not set.",
            hint=f"Set {name} in the environment (.env) before taking payments.",
            id=check_id,
        )
        for name, check_id in REQUIRED_SETTINGS
        if not getattr(settings, name, "")
    ]
