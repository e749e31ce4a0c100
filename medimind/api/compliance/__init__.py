"""
MediMind - Compliance Module

HIPAA endpoints built on the access and audit core.

Components:
- schemas.py: Consent, incident, metrics, breach-scan and retention models
- service.py: Consent recording, incident reporting, compliance metrics
- routes.py: /hipaa endpoints
"""
