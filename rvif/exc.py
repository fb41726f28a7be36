from amaranth import *

from rvif.consts import (ExcPCSource, EXC_PC_SOURCE_BITS, MTVEC_BASE_BITS,
                         EXC_VEC_IDX_BITS)


class ExceptionVectorUnit(Elaboratable):

    def __init__(self, xlen=32):
        self.xlen = xlen

        self.exc_pc_mux = Signal(EXC_PC_SOURCE_BITS)

        self.mtvec_base = Signal(MTVEC_BASE_BITS)
        self.exc_vec_idx = Signal(EXC_VEC_IDX_BITS)
        self.dm_halt_addr = Signal(xlen)
        self.dm_exception_addr = Signal(xlen)

        self.exc_pc = Signal(xlen)

    def elaborate(self, platform):
        m = Module()

        # All synchronous traps enter at the base, interrupt N at base + 4 * N
        trap_pc = Cat(Const(0, 8), self.mtvec_base)
        irq_pc = Cat(Const(0, 2), self.exc_vec_idx, Const(0, 1),
                     self.mtvec_base)

        with m.Switch(self.exc_pc_mux):
            with m.Case(ExcPCSource.EXCEPTION):
                m.d.comb += self.exc_pc.eq(trap_pc)
            with m.Case(ExcPCSource.IRQ):
                m.d.comb += self.exc_pc.eq(irq_pc)
            with m.Case(ExcPCSource.DEBUG_ENTRY):
                m.d.comb += self.exc_pc.eq(
                    Cat(Const(0, 2), self.dm_halt_addr[2:]))
            with m.Case(ExcPCSource.DEBUG_EXCEPTION):
                m.d.comb += self.exc_pc.eq(
                    Cat(Const(0, 2), self.dm_exception_addr[2:]))
            with m.Default():
                m.d.comb += self.exc_pc.eq(trap_pc)

        return m
