"""Foundation layer: settings, logging, errors, storage and schema."""
