from exitonidle.errors import PersistenceSaveError
from exitonidle.persistence import MAX_COUNTER

from .service_context import ServiceContext
from .service_state import ServiceState


async def handle_increment(context: ServiceContext) -> None:
    # No await before the mutation; calls apply in delivery order.
    context.counter = (context.counter + 1) & MAX_COUNTER

    context.timers.save.arm_if_idle()
    idle_delay = bump_idle_timer(context)

    await context.log_debug(f"counter={context.counter}")

    if idle_delay is not None:
        await context.log_trace(f"Reset idle timer ({idle_delay} ms)")


async def handle_get(context: ServiceContext) -> int:
    return context.counter


def bump_idle_timer(context: ServiceContext) -> int | None:
    """
    Push the idle deadline out. Only a RUNNING service re-arms, so
    activity during FLUSHING cannot bring RUNNING back.
    """
    idle_timer = context.timers.idle
    idle_timer.cancel()

    if context.state != ServiceState.RUNNING:
        return None

    return idle_timer.rearm().delay_ms


def enter_flushing(context: ServiceContext) -> bool:
    if context.state != ServiceState.RUNNING:
        return False

    context.timers.idle.cancel()
    context.transition(ServiceState.FLUSHING)

    return True


async def on_idle_timer(context: ServiceContext):
    if enter_flushing(context):
        await context.log_info("Exiting on idle")


async def on_save_timer(context: ServiceContext):
    await save_counter(context)


async def save_counter(context: ServiceContext) -> bool:
    async with context.save_lock:
        value = context.counter

        await context.log_debug("Performing idle content save")

        try:
            await context.store.save_async(value)

        except PersistenceSaveError as err:
            await context.log_error(str(err))
            return False

        context.saved_counter = value
        await context.log_debug(f"Saved counter={value}")

        return True
