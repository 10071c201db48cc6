"""Contracts domain - lifecycle, signing, documents and invoices"""
