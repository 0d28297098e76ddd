from enum import IntEnum


class Opcode(IntEnum):
    """Operation selectors understood by the request interface.

    Values match the request codes of the client library, gaps included.
    """

    CONNECT = 0
    GET_SERVER_LIST = 1
    ADD_SERVER = 2
    UPDATE_SERVER = 4
    DELETE_SERVER = 6
    FIND_SERVER = 7
    GET_SHARED_FOLDER = 8
    GET_FILE_LIST = 9
    GET_FILE_OBJECT = 10
    GET_STRING_MAP = 11
    GET_RESOURCE = 12
    VERIFY_SERVER_INFO = 13
    CHECK_PERMISSION = 14
    GET_SERVER_COUNT = 15
    REMOVE_MONITOR = 16
    REMOVE_CACHED_FILE_LIST = 17
    CREATE_FOLDER = 121
    RENAME = 122
    UPLOAD = 123
    GET_FILE_DESCRIPTOR = 124
    DELETE = 125
    INTERNAL_COPY = 126
    INTERNAL_MOVE = 127
    EXTERNAL_COPY = 128
    EXTERNAL_MOVE = 129
    EXIST = 130

    @classmethod
    def lookup(cls, value: int) -> "Opcode | None":
        """Return the opcode for a raw value, or None if it is not defined."""
        try:
            return cls(value)
        except ValueError:
            return None
