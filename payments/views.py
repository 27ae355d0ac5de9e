import json
import logging

from django.core.exceptions import ImproperlyConfigured
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .exceptions import InvalidSignature, PaymentError
from .gateway import configuration_status, get_gateway_client
from .reconciliation import PaymentReconciler
from .webhooks import process_webhook

logger = logging.getLogger(__name__)


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except Exception: return None


def _error(exc: PaymentError) -> JsonResponse:
    body = {"success": False, "error": exc.message}
    if exc.details is not None:
        body["details"] = exc.details
    return JsonResponse(body, status=exc.status_code)


def _reconciler() -> PaymentReconciler:
    return PaymentReconciler(get_gateway_client())


@csrf_exempt
@require_POST
def create_order_view(request):
    body = _json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"success": False, "error": "Invalid JSON body"}, status=400)

    try:
        result = _reconciler().initiate(
            order_id=body.get("orderId") or body.get("order_id"),
            amount=body.get("amount"),
            currency=body.get("currency"),
            method=body.get("paymentMethod") or body.get("payment_method"),
            user=request.user if request.user.is_authenticated else None,
        )
    except PaymentError as e:
        return _error(e)
    except Exception:
        logger.exception("Unexpected error creating Razorpay order")
        return JsonResponse({"success": False, "error": "Payment initialization failed"}, status=500)

    return JsonResponse({
        "success": True,
        "data": {
            "orderId": result.gateway_order_id,
            "amount": result.amount,
            "currency": result.currency,
            "paymentMethod": result.payment_method,
        },
    })


@csrf_exempt
@require_POST
def verify_payment_view(request):
    body = _json_body(request)
    if not isinstance(body, dict):
        return JsonResponse({"success": False, "error": "Invalid JSON body"}, status=400)

    try:
        result = _reconciler().verify(
            gateway_order_id=body.get("razorpay_order_id"),
            gateway_payment_id=body.get("razorpay_payment_id"),
            signature=body.get("razorpay_signature"),
            order_id=body.get("order_id"),
            method_hint=body.get("payment_method"),
        )
    except PaymentError as e:
        return _error(e)
    except Exception:
        logger.exception("Unexpected error verifying payment")
        return JsonResponse({"success": False, "error": "Payment verification failed"}, status=500)

    return JsonResponse({"success": True, "data": result.payment.as_dict(), "message": result.message})


@csrf_exempt
@require_POST
def webhook_view(request):
    signature = request.headers.get("X-Razorpay-Signature", "")
    try:
        process_webhook(request.body, signature, _reconciler())
    except InvalidSignature:
        return JsonResponse({"error": "Invalid signature"}, status=400)
    except ImproperlyConfigured:
        return JsonResponse({"error": "Webhook secret not configured"}, status=500)
    return JsonResponse({"received": True})


@require_GET
def config_check_view(request):
    flags = configuration_status()
    if all(flags.values()):
        return JsonResponse({"success": True, "message": "Razorpay configuration is present", **flags})
    missing = [name for name, present in flags.items() if not present]
    logger.error("Razorpay configuration incomplete: missing %s", ", ".join(missing))
    return JsonResponse(
        {"success": False, "error": "Razorpay configuration is incomplete", "missing": missing, **flags},
        status=500,
    )
