"""Message templates for loyalty notifications."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal


def _format_amount(amount: Decimal) -> str:
    quantized = amount.quantize(Decimal("0.01"))
    if quantized == quantized.to_integral_value():
        return f"{int(quantized)}"
    return f"{quantized}"


def _format_date(value: datetime) -> str:
    return value.strftime("%d %b %Y")


def render_welcome(*, name: str, customer_id: str) -> str:
    return (
        f"Welcome to our Loyalty Program, {name}!\n"
        f"Your Membership ID is: {customer_id}.\n"
        "Show this number at billing to earn points. Happy Shopping!"
    )


def render_points_earned(
    *,
    purchase_amount: Decimal,
    points_earned: int,
    balance: int,
    expires_at: datetime,
) -> str:
    return (
        "Thank you for shopping with us\n"
        f"Bill: ₹{_format_amount(purchase_amount)}\n"
        f"Points earned: {points_earned}\n"
        f"Total points: {balance}\n"
        f"Valid till: {_format_date(expires_at)}"
    )


def render_points_redeemed(*, points_redeemed: int, balance: int) -> str:
    return (
        "Points Redeemed!\n"
        f"Redeemed: {points_redeemed}\n"
        f"Remaining Balance: {balance}\n"
        "Enjoy your reward!"
    )


def render_points_expiring(*, name: str, points: int, earliest_expiry: datetime) -> str:
    """Reminder sent by the sweep for batches about to lapse."""

    return (
        "Points Expiry Reminder\n\n"
        f"Hi {name}, {points} of your points will expire on {_format_date(earliest_expiry)}.\n\n"
        "Visit us soon to redeem them before they lapse.\n\n"
        "Thank you for being a valued customer!"
    )


__all__ = [
    "render_points_earned",
    "render_points_expiring",
    "render_points_redeemed",
    "render_welcome",
]
