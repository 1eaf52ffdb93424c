"""Customer-facing email templates."""

from html import escape


class OrderConfirmationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        order_id = context.get("order_id", "N/A")
        total = context.get("total", 0.0)
        items = context.get("items", [])
        tracking_number = context.get("tracking_number")

        lines = [f"  {item['quantity']} x {item['name']}  ${item['line_total']:.2f}" for item in items]
        if tracking_number:
            shipping_note = f"Tracking number: {tracking_number}"
        else:
            shipping_note = "We'll notify you once your order ships."
        body = (
            f"Your order #{order_id} has been confirmed.\n\n"
            + ("\n".join(lines) + "\n\n" if lines else "")
            + f"Order Total: ${total:.2f}\n\n"
            + f"{shipping_note}\n\n"
            + "Thank you for your order!"
        )
        rows = "".join(
            f"<tr><td>{item['quantity']} x {escape(item['name'])}</td><td>${item['line_total']:.2f}</td></tr>"
            for item in items
        )
        html_body = (
            f"<h2>Order #{escape(str(order_id))} confirmed</h2>"
            f"<table>{rows}</table>"
            f"<p><strong>Total: ${total:.2f}</strong></p>"
        )
        return {
            "subject": f"Order #{order_id} Confirmed",
            "body": body,
            "html_body": html_body,
        }
