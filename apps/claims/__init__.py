"""
Claims App - Guest Claims and Payer Console

Guests claim fractional quantities of a bill's line items and add a tip;
the payer watches the totals come in and confirms received payments.

Architecture:
- Services: reconciler (pure), claim_session, payer_console
- Views: guest endpoints, ClaimViewSet (submit/received), payer console
- Management: purge_expired_claims
"""
