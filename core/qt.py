# -*- coding: utf-8 -*-
"""
Centralized Qt imports.

Single entry point for the Qt binding (PySide6) so that the rest of the
package never imports it directly.
"""

from PySide6.QtCore import (
    QObject,
    Signal,
    Slot,
)
