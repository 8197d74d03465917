"""Stripe webhook verification, event dispatch and payment session creation."""
