"""Services — imperative shell: load records, consult core rules, apply guarded updates."""
