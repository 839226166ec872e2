"""Tournament Assistant wire protocol: models, packets and codec."""
