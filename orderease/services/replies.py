# orderease/services/replies.py
"""Customer-facing message texts."""
from typing import List

from orderease.models.schemas import CustomerInfo, DraftLines, MenuItemData, OrderStatus
from orderease.models.sql_models import FinalOrder
from orderease.services.menu_catalog import format_price, get_live_menu_text

STATUS_LABELS = {
    OrderStatus.QUEUED.value: "⏳ Queued - the kitchen will start on it shortly",
    OrderStatus.PREPARING.value: "👨‍🍳 Being prepared",
    OrderStatus.READY.value: "✅ Ready for pickup",
    OrderStatus.PICKED.value: "🎉 Picked up",
}


def welcome_message() -> str:
    return (
        "👋 Welcome to OrderEase!\n\n"
        "Type *menu* to see today's dishes, or just tell me what you'd like "
        "(e.g. \"2 pizza 1 coke\").\n"
        "Have an order id? Send it to track your order."
    )


def menu_message(menu: List[MenuItemData]) -> str:
    return (
        "🍽️ *Our Menu*\n\n"
        f"{get_live_menu_text(menu)}\n\n"
        "Reply with what you'd like, e.g. \"2 pizza 1 coke\"."
    )


def empty_menu_message() -> str:
    return "😔 Sorry, nothing is available to order right now. Please check back later."


def ordering_hint() -> str:
    return "Tell me what you'd like to order, e.g. \"2 pizza 1 coke\", or type *menu* to see the dishes."


def order_summary(draft: DraftLines) -> str:
    lines = [f"• {line.quantity} x {line.name} - {format_price(line.line_total)}" for line in draft.lines]
    return (
        "🧾 *Your order*\n\n"
        + "\n".join(lines)
        + f"\n\n*Total: {format_price(draft.total)}*\n\n"
        "Reply *yes* to confirm, *no* to cancel, or *add* followed by more items."
    )


def items_not_found() -> str:
    return (
        "🤔 I couldn't find those items on our menu.\n"
        "Try something like \"2 pizza 1 coke\", or type *menu* to see what's available."
    )


def simplified_order_prompt(menu: List[MenuItemData]) -> str:
    examples = ", ".join(item.name for item in menu[:3]) or "a dish"
    return (
        "Let's keep it simple: send one dish name with a number, like \"1 "
        f"{menu[0].name.lower() if menu else 'pizza'}\".\n"
        f"Available today: {examples}.\n"
        "Type *quit* to start over."
    )


def add_what() -> str:
    return "What would you like to add? e.g. \"add 1 coke\"."


def confirm_options() -> str:
    return "Please reply *yes* to confirm your order, *no* to cancel, or *add* followed by more items."


def order_cancelled() -> str:
    return "❌ Order cancelled. Type *menu* whenever you'd like to order again."


def ask_customer_details() -> str:
    return (
        "Great! 📝 Please send your details in this format:\n\n"
        "*Name, Phone, Address*\n"
        "e.g. John Doe, 9876543210, 12 MG Road\n\n"
        "The address is optional for pickup."
    )


def details_invalid(reason: str) -> str:
    return f"⚠️ {reason}\n\nPlease send: *Name, Phone, Address*"


def simplified_details_prompt() -> str:
    return (
        "Let's try one line at a time:\n"
        "Name: your name\n"
        "Phone: your 10 digit number\n\n"
        "Type *quit* to start over."
    )


def payment_link_message(customer: CustomerInfo, draft: DraftLines, url: str) -> str:
    return (
        f"Thanks {customer.name}! 🙏\n\n"
        f"Amount to pay: *{format_price(draft.total)}*\n"
        f"💳 Pay here: {url}\n\n"
        "Your order is placed as soon as the payment goes through. "
        "Already paid? Reply *paid* and I'll check."
    )


def payment_unavailable() -> str:
    return (
        "⚠️ We couldn't create your payment link right now. "
        "Your order is saved, reply *pay* in a minute to try again."
    )


def payment_reminder() -> str:
    return (
        "⏳ We're waiting for your payment. Use the link above to pay, "
        "reply *paid* once you're done, or type *quit* to start over."
    )


def payment_checking() -> str:
    return "🔎 We haven't received your payment yet. It can take a minute, reply *paid* again shortly."


def no_pending_order() -> str:
    return "We couldn't find an order waiting for your details. Type *menu* to start a new one."


def ask_for_order_id() -> str:
    return "📦 Please send your order id (like 20250101-001) to see its status."


def order_not_found(display_id: str) -> str:
    return f"🤔 No order found with id {display_id}. Please check the id and try again."


def order_status_message(order: FinalOrder) -> str:
    status = STATUS_LABELS.get(order.status, order.status)
    text = f"📦 *Order {order.display_id}*\nStatus: {status}\nTotal: {format_price(order.total_amount)}"
    if order.time_required and order.status == OrderStatus.PREPARING.value:
        text += f"\nEstimated time: {order.time_required} min"
    return text


def payment_success_message(order: FinalOrder) -> str:
    lines = "\n".join(f"• {item['quantity']} x {item['name']}" for item in order.items)
    return (
        "✅ *Payment received!*\n\n"
        f"Your order id is *{order.display_id}*\n{lines}\n"
        f"Total paid: {format_price(order.total_amount)}\n\n"
        "Send your order id any time to check its status."
    )


def payment_failure_message() -> str:
    return (
        "❌ Your payment didn't go through. "
        "You can try again with the same link, or type *quit* to start over."
    )


def payment_for_cancelled_order() -> str:
    return (
        "⚠️ We received a payment for an order that had already been cancelled, "
        "so nothing was placed. Please contact the restaurant for a refund."
    )


def status_update_message(order: FinalOrder) -> str:
    return "🔔 Order update\n\n" + order_status_message(order)


def generic_error() -> str:
    return "😓 Something went wrong on our side. Please try again, or type *quit* to start over."


def busy_message() -> str:
    return "⏳ Still working on your previous message, please send that again in a moment."


def text_only_message() -> str:
    return "I can only read text messages for now. Type *menu* to see what's available."
