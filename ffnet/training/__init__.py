"""Losses, optimizers and the training session."""
