from typing import Optional

from fastapi import status


class LobbyError(Exception):
    """Base class for lobby/game failures shown to the player as-is."""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Lobby operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.detail = message or self.message


class UserNotAuthenticated(LobbyError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "User is not authenticated"

class NoUserProfile(LobbyError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "User profile not found"

class LobbyIdGenerationFailed(LobbyError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Failed to generate lobby ID"

class EncodingFailed(LobbyError):
    message = "Failed to encode data"

class LobbyFull(LobbyError):
    message = "Lobby is full"

class NoActiveLobby(LobbyError):
    status_code = status.HTTP_409_CONFLICT
    message = "No active lobby"

class NotHost(LobbyError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Only the host can perform this action"

class InsufficientPlayers(LobbyError):
    message = "Need at least 2 players to start"

class PlayerNotFound(LobbyError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Player not found in lobby"

class CurrentPlayerNotFound(LobbyError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Cannot determine current player"
