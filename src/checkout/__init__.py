"""Checkout core — turns carts into inventory-consistent orders and reconciles payment outcomes."""
