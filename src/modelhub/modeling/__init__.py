"""
Modeling layer for training and artifact packaging.

Provides the algorithm registry, family trainers, the model builder and the
versioned ModelArtifact format shared with the serving path.
"""
