"""KeyboardInterrupt forwarding for worker threads.

Only the main thread receives SIGINT. When a module build running on a
pool thread sees a KeyboardInterrupt it is forwarded to the main thread
so the CLI stops instead of waiting for the remaining tasks.
"""

import _thread


def handle_keyboard_interrupt_properly(ke: KeyboardInterrupt) -> None:
    """Interrupt the main thread, then re-raise on the current one.

    Usage:
        try:
            return self.rebuild_module_at(module_path)
        except KeyboardInterrupt as ke:
            handle_keyboard_interrupt_properly(ke)

    Raises:
        KeyboardInterrupt: Always
    """
    _thread.interrupt_main()
    raise ke
