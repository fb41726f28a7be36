"""Cycle model of the instruction-fetch control network.

Every function here is pure. :func:`step` evaluates one tick: it reads one
snapshot of :class:`FetchInputs`, computes the combinational results from the
current :class:`PipelineSlot` and returns the slot for the next tick together
with the tick's :class:`FetchOutputs`. The fetch unit, aligner and
decompressor are collaborators, so their outputs arrive as inputs.
"""

from dataclasses import dataclass, replace

from rvif.consts import PCSource, ExcPCSource

MASK32 = 0xffffffff


@dataclass(frozen=True)
class PipelineSlot:
    valid: bool = False
    instr: int = 0
    pc: int = 0
    is_compressed: bool = False
    illegal_compressed: bool = False
    fetch_failed: bool = False

    def pack(self):
        """Bit image matching the gateware ``PipelineSlot`` struct."""
        return (int(self.valid)
                | (self.instr << 1)
                | (self.pc << 33)
                | (int(self.is_compressed) << 65)
                | (int(self.illegal_compressed) << 66)
                | (int(self.fetch_failed) << 67))

    @classmethod
    def unpack(cls, value):
        return cls(valid=bool(value & 1),
                   instr=(value >> 1) & MASK32,
                   pc=(value >> 33) & MASK32,
                   is_compressed=bool((value >> 65) & 1),
                   illegal_compressed=bool((value >> 66) & 1),
                   fetch_failed=bool((value >> 67) & 1))


@dataclass(frozen=True)
class Handshake:
    redirect: bool
    consume_ready: bool
    if_ready: bool
    if_valid: bool
    busy: bool
    miss: bool


@dataclass(frozen=True)
class FetchInputs:
    # Upstream control
    req: bool = True
    pc_set: bool = False
    pc_mux: int = PCSource.BOOT
    exc_pc_mux: int = ExcPCSource.EXCEPTION
    boot_addr: int = 0
    jump_target_id: int = 0
    jump_target_ex: int = 0
    mepc: int = 0
    depc: int = 0
    mtvec_base: int = 0
    exc_vec_idx: int = 0
    dm_halt_addr: int = 0
    dm_exception_addr: int = 0
    halt_if: bool = False
    id_ready: bool = True
    clear_instr_valid: bool = False
    fetch_failed: bool = False

    # Fetch unit
    fetch_valid: bool = False
    fetch_busy: bool = False

    # Aligner and decompressor
    aligner_ready: bool = True
    instr_valid: bool = False
    aligned_pc: int = 0
    instr: int = 0
    is_compressed: bool = False
    illegal_compressed: bool = False


@dataclass(frozen=True)
class FetchOutputs:
    slot: PipelineSlot
    redirect: bool
    redirect_addr: int
    consume_ready: bool
    if_valid: bool
    pc_if: int
    csr_mtvec_init: bool
    busy: bool
    miss: bool


def boot_pc(boot_addr):
    return boot_addr & MASK32 & ~0x3


def select_pc(tag, jump_id, jump_ex, exception_pc, mepc, dpc, current_pc,
              boot_addr):
    match tag:
        case PCSource.BOOT:
            return boot_pc(boot_addr)
        case PCSource.JUMP:
            return jump_id & MASK32
        case PCSource.BRANCH:
            return jump_ex & MASK32
        case PCSource.EXCEPTION:
            return exception_pc & MASK32
        case PCSource.MRET:
            return mepc & MASK32
        case PCSource.DRET:
            return dpc & MASK32
        case PCSource.FENCEI:
            return (current_pc + 4) & MASK32
        case _:
            return boot_pc(boot_addr)


def redirect_target(candidate):
    return candidate & MASK32 & ~0x1


def select_exception_pc(tag, mtvec_base, vec_index, dbg_halt, dbg_exc):
    base = (mtvec_base & 0xffffff) << 8

    match tag:
        case ExcPCSource.EXCEPTION:
            return base
        case ExcPCSource.IRQ:
            return base | ((vec_index & 0x1f) << 2)
        case ExcPCSource.DEBUG_ENTRY:
            return dbg_halt & MASK32 & ~0x3
        case ExcPCSource.DEBUG_EXCEPTION:
            return dbg_exc & MASK32 & ~0x3
        case _:
            return base


def handshake(pc_set, req, fetch_valid, halt_if, id_ready, aligner_ready,
              fetch_busy=False):
    if_ready = fetch_valid and id_ready and req and not pc_set
    if_valid = if_ready and not halt_if

    if pc_set:
        redirect, consume_ready = True, False
    elif fetch_valid:
        redirect = False
        consume_ready = req and if_valid and aligner_ready
    else:
        redirect, consume_ready = False, False

    return Handshake(redirect=redirect,
                     consume_ready=consume_ready,
                     if_ready=if_ready,
                     if_valid=if_valid,
                     busy=fetch_busy,
                     miss=not fetch_valid and not redirect)


def if_id_step(slot,
               if_valid,
               instr_valid,
               clear_instr_valid,
               instr=0,
               pc=0,
               is_compressed=False,
               illegal_compressed=False,
               fetch_failed=False,
               reset=False):
    if reset:
        return PipelineSlot()

    if if_valid and instr_valid:
        return PipelineSlot(valid=True,
                            instr=instr & MASK32,
                            pc=pc & MASK32,
                            is_compressed=is_compressed,
                            illegal_compressed=illegal_compressed,
                            fetch_failed=False)

    if clear_instr_valid:
        return replace(slot, valid=False, fetch_failed=fetch_failed)

    return slot


def step(state, inputs, reset=False):
    exc_pc = select_exception_pc(inputs.exc_pc_mux, inputs.mtvec_base,
                                 inputs.exc_vec_idx, inputs.dm_halt_addr,
                                 inputs.dm_exception_addr)
    candidate = select_pc(inputs.pc_mux, inputs.jump_target_id,
                          inputs.jump_target_ex, exc_pc, inputs.mepc,
                          inputs.depc, state.pc, inputs.boot_addr)

    hs = handshake(inputs.pc_set, inputs.req, inputs.fetch_valid,
                   inputs.halt_if, inputs.id_ready, inputs.aligner_ready,
                   inputs.fetch_busy)

    outputs = FetchOutputs(
        slot=state,
        redirect=hs.redirect,
        redirect_addr=redirect_target(candidate),
        consume_ready=hs.consume_ready,
        if_valid=hs.if_valid,
        pc_if=inputs.aligned_pc,
        csr_mtvec_init=inputs.pc_set and inputs.pc_mux == PCSource.BOOT,
        busy=hs.busy,
        miss=hs.miss)

    next_state = if_id_step(state,
                            if_valid=hs.if_valid,
                            instr_valid=inputs.instr_valid,
                            clear_instr_valid=inputs.clear_instr_valid,
                            instr=inputs.instr,
                            pc=inputs.aligned_pc,
                            is_compressed=inputs.is_compressed,
                            illegal_compressed=inputs.illegal_compressed,
                            fetch_failed=inputs.fetch_failed,
                            reset=reset)

    return next_state, outputs
