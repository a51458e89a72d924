"""
AI capability services.

Clients for the workflow backend, completion, vision and speech models, the
response normalizer, the chat tool router and the fallback orchestrator.
Models extract, route and phrase; stock figures and safety decisions come
from deterministic code in ``pharmassist.services.drugs``.
"""
