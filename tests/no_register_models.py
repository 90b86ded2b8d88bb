"""Models module without a register_models hook."""

TABLE_OPTIONS = {}
