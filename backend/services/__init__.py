from importlib import import_module

__all__ = [
    "weather_report_orchestrator",
    "WeatherReportOrchestrator",
    "get_llm_manager",
    "UpstreamCircuitBreaker",
]

_LAZY_EXPORTS = {
    "weather_report_orchestrator": ("services.weather", "weather_report_orchestrator"),
    "WeatherReportOrchestrator": ("services.weather.orchestrator", "WeatherReportOrchestrator"),
    "get_llm_manager": ("services.ai", "get_llm_manager"),
    "UpstreamCircuitBreaker": ("services.circuit_breaker", "UpstreamCircuitBreaker"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'services' has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
