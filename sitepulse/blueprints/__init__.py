"""
SitePulse survey service
Blueprint registry.

    survey_bp            /api/v1/survey/*, /api/v1/projects/<id>/survey*
    delay_prediction_bp  /api/v1/projects/<id>/delay-predictions, /api/v1/delay-predictions/*
    health_bp            /api/v1/health/*
"""
