"""
Email templates for credit notifications
"""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class EmailTemplate:
    subject: str
    body: str
    html_body: str


def credits_purchased_template(data: Dict[str, Any], app_name: str) -> EmailTemplate:
    """
    Purchase confirmation. `data` needs shop_name, package_name, credits,
    amount, currency and billing_date; a missing key raises KeyError.
    """
    shop_name = data["shop_name"]
    package_name = data["package_name"]
    credits = data["credits"]
    amount = data["amount"]
    currency = data["currency"]
    billing_date = data["billing_date"]

    subject = f"Credits Purchase Confirmed - {shop_name}"

    body = f"""
Hi {shop_name},

Thank you for your purchase! Your {package_name} package is now active.

Purchase Details:
- Credits: {credits}
- Amount: {amount} {currency}
- Billing Date: {billing_date}

You can start using your credits in {app_name} right away.

Best regards,
{app_name} Team
"""

    html_body = f"""
<html>
<body>
    <h2>Credits Purchase Confirmed</h2>
    <p>Hi {shop_name},</p>
    <p>Thank you for your purchase! Your <strong>{package_name}</strong> package is now active.</p>
    <table>
        <tr><td>Credits</td><td>{credits}</td></tr>
        <tr><td>Amount</td><td>{amount} {currency}</td></tr>
        <tr><td>Billing Date</td><td>{billing_date}</td></tr>
    </table>
    <p>You can start using your credits in {app_name} right away.</p>
    <p>Best regards,<br>{app_name} Team</p>
</body>
</html>
"""

    return EmailTemplate(subject=subject, body=body, html_body=html_body)
