"""
Email bodies for engine-generated notifications.
"""

from decimal import Decimal
from html import escape

BRAND = "QuickPharma+"


def reorder_subject(product_name: str) -> str:
    return f"[{BRAND}] Automated Order Notification: {product_name} Threshold Reached"


def reorder_notice_html(
    *,
    recipient_name: str,
    product_name: str,
    supplier_name: str,
    branch_name: str,
    threshold: int,
    ordered_quantity: int,
    order_date: str,
    order_time: str,
) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; line-height: 1.6; max-width: 600px; margin: 0 auto; padding: 20px;
                border: 1px solid #e0e0e0; border-radius: 8px;">
      <div style="background: #4c51bf; padding: 20px; border-radius: 8px 8px 0 0; margin: -20px -20px 20px -20px;">
        <h2 style="color: white; margin: 0; font-size: 22px;">Automated Order Notification</h2>
      </div>
      <p>Dear <strong>{escape(recipient_name or "colleague")}</strong>,</p>
      <p style="color: #555;">This is an automated notification from the <strong>{BRAND}</strong> system.</p>
      <div style="background-color: #fff3cd; border-left: 4px solid #ffc107; padding: 12px 16px; border-radius: 4px;">
        <p style="margin: 0; color: #856404;">
          A new automated order has been generated for <strong>{escape(branch_name)}</strong> branch on
          <strong>{escape(order_date)}</strong> at <strong>{escape(order_time)}</strong>.
        </p>
      </div>
      <p style="color: #555;">
        This order was triggered because the quantity of <strong>{escape(product_name)}</strong>
        (supplied by <strong>{escape(supplier_name)}</strong>) has reached the defined threshold of
        <strong>{threshold}</strong> units.
      </p>
      <table style="width: 100%; border-collapse: collapse;">
        <tr><td style="padding: 6px 0; font-weight: bold; width: 40%;">Product:</td><td>{escape(product_name)}</td></tr>
        <tr><td style="padding: 6px 0; font-weight: bold;">Supplier:</td><td>{escape(supplier_name)}</td></tr>
        <tr><td style="padding: 6px 0; font-weight: bold;">Branch:</td><td>{escape(branch_name)}</td></tr>
        <tr><td style="padding: 6px 0; font-weight: bold;">Threshold:</td><td>{threshold} units</td></tr>
        <tr style="background-color: #e8f5e9;">
          <td style="padding: 6px 0; font-weight: bold; color: #2e7d32;">Ordered Quantity:</td>
          <td style="color: #2e7d32; font-weight: bold;">{ordered_quantity} units</td>
        </tr>
      </table>
      <p style="color: #0d47a1;">
        This order is currently <strong>pending supplier approval</strong>. You will receive a further
        update once the supplier confirms.
      </p>
      <p style="color: #888; margin-top: 30px;">Best regards,<br/><strong>{BRAND} Automated Notifications</strong></p>
    </div>
    """


def plan_subject(is_reminder: bool) -> str:
    if is_reminder:
        return "QuickPharmaPlus – Monthly Prescription Reminder"
    return "QuickPharmaPlus – Monthly Prescription Ready"


def plan_email_html(
    *,
    is_reminder: bool,
    customer_name: str,
    prescription_name: str,
    method_label: str,
    location_label: str,
    total_amount: Decimal,
) -> str:
    location_title = "Address" if method_label == "Delivery" else "Branch"
    details = (
        f"<p><b>{location_title}:</b> {escape(location_label)}<br/>"
        f"<b>Total Amount:</b> {total_amount:.3f} BHD</p>"
    )

    if is_reminder:
        lead = (
            f"This is a reminder that <b>your prescription for {escape(prescription_name)}</b> "
            f"will be ready in <b>3 days</b>."
        )
    elif method_label == "Pickup":
        lead = f"Your prescription for <b>{escape(prescription_name)}</b> can be picked up <b>today</b>."
    else:
        lead = f"Your prescription for <b>{escape(prescription_name)}</b> will be delivered <b>today</b>."

    return f"""
    <p>Hello {escape(customer_name)},</p>
    <p>{lead}</p>
    {details}
    <p>Best regards,<br/>QuickPharmaPlus Support</p>
    """
