"""
Actors.

- registry.py: ActorRegistry.execute(task) over a closed dispatch table
- prompts.py: per-actor prompt builders and result shapers
- plan_parsing.py: JSON plan extraction and dependency normalisation
- defaults.py / actor_models.py: actor configuration
"""
