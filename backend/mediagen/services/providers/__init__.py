"""Platform provider implementations.

Each provider module contributes a ``PlatformProtocol`` (wire quirks) and
one ``ModelBundle`` per model. The shared execution follows one of:
  sync:  POST → normalize
  async: POST submit → poll status → normalize
"""
