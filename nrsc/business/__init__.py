"""Validation and state of payment, text and data-feed messages over a joint store."""