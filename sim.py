from amaranth.sim import Simulator

from rvif.consts import PCSource
from rvif.if_stage import IFStage
from rvif.interface import OBI
from rvif.bench import SyncHarness, InstrMemory

import argparse
import logging
import random
import sys

logger = logging.getLogger('rvif.sim')


def read_mem_image(filename, base):
    image = {}

    with open(filename, 'rb') as f:
        data = f.read()

    for i, b in enumerate(data):
        image[base + i] = b

    return image


def parse_redirect(value):
    cycle, addr = value.split(':')
    return int(cycle, 0), int(addr, 0)


fetch_params = dict(
    fetch_buffer_depth=2,
    use_fpu=False,
)

if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description='Instruction fetch stage simulation')
    parser.add_argument('image', type=str, help='Program image')
    parser.add_argument('--base',
                        type=lambda x: int(x, 0),
                        help='Load and boot address',
                        default=0x80000000)
    parser.add_argument('--cycles',
                        type=int,
                        help='Number of cycles to simulate',
                        default=1000)
    parser.add_argument('--latency',
                        type=int,
                        help='Instruction memory latency',
                        default=1)
    parser.add_argument('--stall',
                        type=float,
                        help='Probability of a decode stall per cycle',
                        default=0.0)
    parser.add_argument('--depth',
                        type=int,
                        help='Fetch buffer depth',
                        default=fetch_params['fetch_buffer_depth'])
    parser.add_argument('--fpu',
                        action='store_true',
                        help='Accept compressed floating-point forms')
    parser.add_argument('--redirect',
                        type=parse_redirect,
                        action='append',
                        default=[],
                        metavar='CYCLE:ADDR',
                        help='Jump to ADDR at CYCLE')
    parser.add_argument('--seed', type=int, default=0)
    parser.add_argument('--trace', type=str, help='Trace file', default=None)
    parser.add_argument('--vcd', type=str, help='VCD file', default=None)
    parser.add_argument('-v', '--verbose', action='store_true')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s')

    params = dict(fetch_params,
                  fetch_buffer_depth=args.depth,
                  use_fpu=args.fpu)

    ibus = OBI(path=('ibus',))
    dut = IFStage(ibus, params)
    top = SyncHarness(dut)

    image = read_mem_image(args.image, args.base)
    logger.info('Loaded %d bytes at %08x', len(image), args.base)

    mem = InstrMemory(ibus, image, latency=args.latency)
    redirects = dict(args.redirect)
    rng = random.Random(args.seed)

    sim = Simulator(top)
    sim.add_clock(1e-6)

    def process_trace(cycles, log_file):

        async def testbench(ctx):
            ctx.set(top.rst, 1)
            await ctx.tick()
            ctx.set(top.rst, 0)

            ctx.set(dut.req, 1)
            ctx.set(dut.boot_addr, args.base)

            retired = 0
            for cycle in range(cycles):
                id_ready = rng.random() >= args.stall

                if cycle == 0:
                    ctx.set(dut.pc_set, 1)
                    ctx.set(dut.pc_mux, PCSource.BOOT)
                elif cycle in redirects:
                    ctx.set(dut.pc_set, 1)
                    ctx.set(dut.pc_mux, PCSource.JUMP)
                    ctx.set(dut.jump_target_id, redirects[cycle])
                    id_ready = True
                else:
                    ctx.set(dut.pc_set, 0)

                pc_set = ctx.get(dut.pc_set)
                ctx.set(dut.id_ready, id_ready)
                ctx.set(dut.clear_instr_valid, id_ready | pc_set)

                mem.respond(ctx)

                if pc_set:
                    logger.debug('cycle %d: redirect to %08x', cycle,
                                 ctx.get(dut.redirect_addr))

                if id_ready and ctx.get(dut.slot.valid):
                    pc = ctx.get(dut.slot.pc)
                    instr = ctx.get(dut.slot.instr)
                    flags = ''
                    if ctx.get(dut.slot.is_compressed):
                        flags += 'C'
                    if ctx.get(dut.slot.illegal_compressed):
                        flags += '!'
                    print(f'I {cycle} {pc:08x} {instr:08x} {flags}',
                          file=log_file)
                    retired += 1

                await ctx.tick()

            logger.info('%d instructions in %d cycles, %d bus requests',
                        retired, cycles, len(mem.requests))

        return testbench

    f = open(args.trace, 'w') if args.trace is not None else sys.stdout

    sim.add_testbench(process_trace(args.cycles, f))
    if args.vcd is not None:
        with sim.write_vcd(args.vcd):
            sim.run()
    else:
        sim.run()

    if f is not sys.stdout:
        f.close()
