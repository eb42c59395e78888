from .routes_weather import router

__all__ = ["router"]
