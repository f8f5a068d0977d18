"""
bot package: Calendar Herald runtime (components, scheduler, tasks, events, storage).
"""
