"""
Commerce core: order lifecycle, cart recording and payment callbacks.

Import submodules directly (commerce.lifecycle, commerce.events, ...).
"""
