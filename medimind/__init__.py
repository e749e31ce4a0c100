"""
MediMind: hospital access control and HIPAA audit core.

Components:
    - Access policy: role -> resource type -> action grants
    - Audit log: append-only record of every access attempt
    - Breach heuristic: access burst classification
    - Retention classifier: retain / archive / delete by record age
"""

__version__ = "1.0.0"
