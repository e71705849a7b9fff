"""Deadline math, schedule store, scheduler engine and the task change reactor."""
