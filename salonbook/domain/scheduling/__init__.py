"""
Scheduling Domain

Computes bookable slots from working hours, breaks, blocked periods and existing
bookings; drives the appointment lifecycle; expands recurring series; and runs the
no-show / reminder batch monitors.

Every entry point takes the tenant id explicitly - it is resolved once at the HTTP
boundary (see salonbook.tenancy) and by the worker when iterating active tenants.
"""
