from steprail.registry.handler_registry import HandlerNotFoundError, HandlerRegistry, StepHandler

__all__ = ["HandlerNotFoundError", "HandlerRegistry", "StepHandler"]
