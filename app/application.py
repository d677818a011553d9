"""Application factory — headless QCoreApplication with Qt messages routed to logging."""

import logging

from PyQt6.QtCore import QCoreApplication, QtMsgType, qInstallMessageHandler

from app.constants import APP_NAME, APP_ORGANIZATION, APP_VERSION

logger = logging.getLogger("qt")

_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def _qt_message_handler(msg_type, context, message):
    """Forward Qt diagnostics to the ``qt`` logger."""
    logger.log(_LEVELS.get(msg_type, logging.WARNING), message)


def create_application(argv: list[str]) -> QCoreApplication:
    """Return the running Qt application, creating a headless one if needed."""
    qInstallMessageHandler(_qt_message_handler)

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(argv)
    app.setApplicationName(APP_NAME)
    app.setOrganizationName(APP_ORGANIZATION)
    app.setApplicationVersion(APP_VERSION)
    return app
