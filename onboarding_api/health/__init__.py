from onboarding_api.health.router import router


__all__ = ["router"]
