"""Transfer event tracking pipeline: decoder, planner, source adapter, sync and engine."""
