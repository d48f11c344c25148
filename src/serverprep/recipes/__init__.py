"""Built-in recipes: step registries for common provisioning flows."""

from .answers import Questionnaire, ServerAnswers, collect_answers, load_answers, save_answers
from .server import ServerRecipe

__all__ = [
    "Questionnaire",
    "ServerAnswers",
    "ServerRecipe",
    "collect_answers",
    "load_answers",
    "save_answers",
]
