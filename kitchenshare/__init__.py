"""KitchenShare: shared recipe catalog with copy-on-write forks per household."""
