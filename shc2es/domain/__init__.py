"""Domain models for controller events, the device registry and documents."""
