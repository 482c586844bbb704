"""Proxy Network Reconciler (PNR).

Bootstrap tooling for a shared reverse-proxy/logging stack:
 - provisions secrets, env files and data directories
 - attaches the proxy container to every declared project network
 - keeps the shared logging network in place
 - reloads the proxy configuration once the networks are in place

Network membership is re-read from Docker on every run, so running the
bootstrap twice is always safe.
"""
