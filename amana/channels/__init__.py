"""Chat channels and the messaging shell."""
