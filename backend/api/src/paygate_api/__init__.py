"""REST API for the payment gateway."""
