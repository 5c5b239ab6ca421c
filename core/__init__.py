"""Domain core: models, actions, reducer, notifications, store and dual-write dispatch."""
