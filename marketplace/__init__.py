"""
Marketplace backend.

Multi-role e-commerce API: product stock, order placement and fulfillment,
and push notifications for vendors and customer service staff.
"""

__version__ = "1.0.0"
