from .async_fault import AsyncFault as AsyncFault
