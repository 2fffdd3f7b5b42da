"""Payment gateway collaborator used for refunds back to the original instrument."""

from .razorpay_client import GatewayRefundResult, GatewayRefundStatus, PaymentGateway, RazorpayGateway

__all__ = ["GatewayRefundResult", "GatewayRefundStatus", "PaymentGateway", "RazorpayGateway"]
