"""Login Dialog: modal sign-in window.

Implements the ``LoginPrompt`` contract with CustomTkinter: gathers a
username and password, hands them to the injected validator, shows the
validator's error text verbatim and lets the user retry until they
either succeed or close the window.

**Thin UI Rule**: this module contains ZERO business logic.
"""

from __future__ import annotations

import tkinter as tk
from typing import Optional

import customtkinter as ctk

from licensegate.logger import StructuredLogger
from licensegate.models.account import Account
from licensegate.services.gate import CredentialValidator
from licensegate.ui.theme import (
    ACCENT_HOVER,
    ACCENT_PRIMARY,
    CONTENT_BG,
    CONTENT_CARD_BG,
    CORNER_RADIUS,
    ERROR_TEXT,
    FONT_BODY,
    FONT_BUTTON,
    FONT_HEADING,
    FONT_LABEL,
    FONT_SMALL,
    INPUT_BG,
    INPUT_BORDER,
    PADDING_LG,
    PADDING_MD,
    PADDING_SM,
    TEXT_LIGHT,
    TEXT_PRIMARY,
    TEXT_SECONDARY,
)

_WINDOW_SIZE: str = "400x420"
_INPUT_HEIGHT: int = 40
_BUTTON_HEIGHT: int = 42


class LoginDialog:
    """Blocking sign-in window.

    Parameters
    ----------
    logger:
        Structured logger.
    title:
        Window title.
    """

    def __init__(self, logger: StructuredLogger, title: str = "Sign in") -> None:
        self._logger: StructuredLogger = logger
        self._title: str = title

        self._window: Optional[ctk.CTk] = None
        self._validator: Optional[CredentialValidator] = None
        self._result: Optional[Account] = None

        self._username_entry: Optional[ctk.CTkEntry] = None
        self._password_entry: Optional[ctk.CTkEntry] = None
        self._error_label: Optional[ctk.CTkLabel] = None

    def prompt(self, validator: CredentialValidator) -> Optional[Account]:
        """Show the dialog and block until it closes.

        Returns the confirmed account, or ``None`` if the user cancelled.
        """
        self._validator = validator
        self._result = None

        self._window = ctk.CTk()
        self._window.title(self._title)
        self._window.geometry(_WINDOW_SIZE)
        self._window.resizable(False, False)
        self._window.configure(fg_color=CONTENT_BG)
        self._window.protocol("WM_DELETE_WINDOW", self._handle_cancel)

        self._build_ui(self._window)
        if self._username_entry is not None:
            self._username_entry.focus_set()

        self._window.mainloop()
        return self._result

    # ------------------------------------------------------------------
    # UI Construction
    # ------------------------------------------------------------------

    def _build_ui(self, window: ctk.CTk) -> None:
        card = ctk.CTkFrame(window, fg_color=CONTENT_CARD_BG, corner_radius=CORNER_RADIUS)
        card.pack(fill="both", expand=True, padx=PADDING_LG, pady=PADDING_LG)

        ctk.CTkLabel(
            card,
            text="Sign in to continue",
            font=FONT_HEADING,
            text_color=TEXT_PRIMARY,
        ).pack(pady=(PADDING_LG, PADDING_MD))

        ctk.CTkLabel(
            card,
            text="USERNAME",
            font=FONT_LABEL,
            text_color=TEXT_PRIMARY,
            anchor="w",
        ).pack(fill="x", padx=PADDING_LG, pady=(0, 4))

        self._username_entry = ctk.CTkEntry(
            card,
            font=FONT_BODY,
            fg_color=INPUT_BG,
            border_color=INPUT_BORDER,
            text_color=TEXT_PRIMARY,
            height=_INPUT_HEIGHT,
            corner_radius=CORNER_RADIUS,
        )
        self._username_entry.pack(fill="x", padx=PADDING_LG, pady=(0, PADDING_MD))

        ctk.CTkLabel(
            card,
            text="PASSWORD",
            font=FONT_LABEL,
            text_color=TEXT_PRIMARY,
            anchor="w",
        ).pack(fill="x", padx=PADDING_LG, pady=(0, 4))

        self._password_entry = ctk.CTkEntry(
            card,
            font=FONT_BODY,
            fg_color=INPUT_BG,
            border_color=INPUT_BORDER,
            text_color=TEXT_PRIMARY,
            show="*",
            height=_INPUT_HEIGHT,
            corner_radius=CORNER_RADIUS,
        )
        self._password_entry.pack(fill="x", padx=PADDING_LG, pady=(0, PADDING_MD))

        ctk.CTkButton(
            card,
            text="Sign In",
            font=FONT_BUTTON,
            fg_color=ACCENT_PRIMARY,
            hover_color=ACCENT_HOVER,
            text_color=TEXT_LIGHT,
            height=_BUTTON_HEIGHT,
            corner_radius=CORNER_RADIUS,
            command=self._handle_sign_in,
        ).pack(fill="x", padx=PADDING_LG, pady=(0, PADDING_SM))

        ctk.CTkButton(
            card,
            text="Cancel",
            font=FONT_SMALL,
            fg_color="transparent",
            hover_color=CONTENT_BG,
            text_color=TEXT_SECONDARY,
            height=28,
            corner_radius=CORNER_RADIUS,
            command=self._handle_cancel,
        ).pack(padx=PADDING_LG)

        self._error_label = ctk.CTkLabel(
            card,
            text="",
            font=FONT_SMALL,
            text_color=ERROR_TEXT,
            wraplength=300,
        )
        self._error_label.pack(fill="x", padx=PADDING_LG, pady=(PADDING_SM, 0))

        self._username_entry.bind("<Return>", self._on_enter_key)
        self._password_entry.bind("<Return>", self._on_enter_key)

    # ------------------------------------------------------------------
    # Event Handlers
    # ------------------------------------------------------------------

    def _on_enter_key(self, event: tk.Event[tk.Misc]) -> None:
        self._handle_sign_in()

    def _handle_sign_in(self) -> None:
        """Validate the entered pair; close on success, show error otherwise."""
        if self._validator is None or self._username_entry is None or self._password_entry is None:
            return

        username = self._username_entry.get().strip()
        password = self._password_entry.get()

        result = self._validator.validate_credentials(username, password)
        if result.success:
            self._result = result.account
            self._close()
            return

        if self._error_label is not None:
            self._error_label.configure(text=result.error_message or "Sign-in failed.")

    def _handle_cancel(self) -> None:
        self._logger.debug("Login dialog closed without signing in.")
        self._result = None
        self._close()

    def _close(self) -> None:
        if self._window is not None:
            self._window.quit()
            self._window.destroy()
            self._window = None
