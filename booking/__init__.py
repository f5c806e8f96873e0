"""Appointment scheduling application for the hospital backend.

This package contains the availability window and appointment models, the
scheduling core (``booking.services``), serializers, views and the route
registrations for the scheduling API.
"""
