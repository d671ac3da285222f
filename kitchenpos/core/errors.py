class PosError(Exception):
    """Base de los errores de la terminal; el handler HTTP usa status_code y code."""

    status_code = 400
    code = "POS_ERROR"
    default_message = "Error en la operación"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# ---------- validación ----------
class InsufficientStock(PosError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"
    default_message = "Stock insuficiente"


class ChangeNotRepresentable(PosError):
    status_code = 422
    code = "CHANGE_NOT_REPRESENTABLE"
    default_message = "No se puede dar cambio exacto con los billetes disponibles"


class InsufficientCash(PosError):
    status_code = 422
    code = "INSUFFICIENT_CASH"
    default_message = "El efectivo recibido no cubre el total"


class InvalidScheduledTime(PosError):
    status_code = 422
    code = "INVALID_SCHEDULED_TIME"
    default_message = "Horario inválido, se espera HH:MM"


class EmptyCart(PosError):
    status_code = 409
    code = "EMPTY_CART"
    default_message = "El carrito está vacío"


class CheckoutStateError(PosError):
    status_code = 409
    code = "CHECKOUT_STATE"
    default_message = "Operación no permitida en el estado actual"


class InvalidStatusTransition(PosError):
    status_code = 409
    code = "INVALID_STATUS_TRANSITION"
    default_message = "Cambio de estado no permitido"


class InvalidSelection(PosError):
    status_code = 422
    code = "INVALID_SELECTION"
    default_message = "Selección inválida"


class NotFound(PosError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Registro no encontrado"


# ---------- E/S ----------
class KdsError(PosError):
    status_code = 502
    code = "KDS_ERROR"
    default_message = "Error de conexión con KDS"


class SaleFailed(PosError):
    status_code = 500
    code = "SALE_FAILED"
    default_message = "Error al completar la venta"
