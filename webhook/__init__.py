"""
Webhook module - FastAPI route handlers.

Includes:
- commerce.py: multiplexed WhatsApp / order / cart webhook
- payments.py: PayU payment callback
"""
