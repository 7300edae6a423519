"""Outpatient department app.

Appointment queue, billing, payments and the live queue feed for the
clinic front desk.
"""
