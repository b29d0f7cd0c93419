"""sitepulse.integrations — External service gateway modules.

All outbound HTTP calls to remote services must go through a gateway in
this package, never via bare `requests` calls in services or blueprints.

Current gateways:
  prediction_gateway.PredictionGateway — delay-prediction cloud functions
"""
