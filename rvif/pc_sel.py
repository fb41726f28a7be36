from amaranth import *

from rvif.consts import PCSource, PC_SOURCE_BITS


class PCSelector(Elaboratable):

    def __init__(self, xlen=32):
        self.xlen = xlen

        self.pc_mux = Signal(PC_SOURCE_BITS)

        self.boot_addr = Signal(xlen)
        self.jump_target_id = Signal(xlen)
        self.jump_target_ex = Signal(xlen)
        self.exc_pc = Signal(xlen)
        self.mepc = Signal(xlen)
        self.depc = Signal(xlen)
        self.pc_id = Signal(xlen)

        self.candidate = Signal(xlen)
        self.branch_addr = Signal(xlen)

    def elaborate(self, platform):
        m = Module()

        boot_pc = Cat(Const(0, 2), self.boot_addr[2:])

        with m.Switch(self.pc_mux):
            with m.Case(PCSource.BOOT):
                m.d.comb += self.candidate.eq(boot_pc)
            with m.Case(PCSource.JUMP):
                m.d.comb += self.candidate.eq(self.jump_target_id)
            with m.Case(PCSource.BRANCH):
                m.d.comb += self.candidate.eq(self.jump_target_ex)
            with m.Case(PCSource.EXCEPTION):
                m.d.comb += self.candidate.eq(self.exc_pc)
            with m.Case(PCSource.MRET):
                m.d.comb += self.candidate.eq(self.mepc)
            with m.Case(PCSource.DRET):
                m.d.comb += self.candidate.eq(self.depc)
            with m.Case(PCSource.FENCEI):
                # Refetch the instruction following the fence
                m.d.comb += self.candidate.eq(self.pc_id + 4)
            with m.Default():
                m.d.comb += self.candidate.eq(boot_pc)

        m.d.comb += self.branch_addr.eq(Cat(Const(0, 1), self.candidate[1:]))

        return m
