"""Clinic application for the hospital management backend.

This package contains models, services, serializers, views and route
registrations for patients, appointments, staff, visits, billing, the
pharmacy, reports, notifications and dashboards.
"""
