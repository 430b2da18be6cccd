"""
Summarium - Property-Based Testing Suite

Property-based tests using Hypothesis for calendar periods and the
summary retry budget.
"""
