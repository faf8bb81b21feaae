"""Consultation booking, billing and service plan engine"""
