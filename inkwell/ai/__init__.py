"""AI layer: action vocabulary, response extraction, prompt context, provider bridge and the action engine."""
